from lawlaw.extensions import db
from lawlaw.models import Product, Recipe, User, UserRole
from decimal import Decimal
import logging

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = 'lawlaw123'

USERS = [
    {'email': 'admin@lawlawdelights.ph', 'name': 'Lawlaw Admin',
     'role': UserRole.ADMIN},
    {'email': 'seller@lawlawdelights.ph', 'name': 'Aling Nena',
     'role': UserRole.SELLER},
    {'email': 'buyer@lawlawdelights.ph', 'name': 'Juan Dela Cruz',
     'role': UserRole.BUYER},
]

PRODUCTS = [
    {'name': 'Ube Halaya', 'category': 'desserts', 'price': '180.00',
     'stock': 40,
     'description': 'Purple yam jam slow-cooked with coconut milk.'},
    {'name': 'Leche Flan', 'category': 'desserts', 'price': '150.00',
     'stock': 25,
     'description': 'Steamed caramel custard in a llanera.'},
    {'name': 'Chicharon Bulaklak', 'category': 'snacks', 'price': '120.00',
     'stock': 60,
     'description': 'Crispy fried pork mesentery, served with vinegar.'},
    {'name': 'Bagoong Alamang', 'category': 'condiments',
     'price': '95.00', 'stock': 80,
     'description': 'Sauteed shrimp paste, sweet and spicy.'},
]

RECIPES = [
    {
        'title': 'Chicken Adobo',
        'description': 'Chicken braised in vinegar, soy sauce and garlic.',
        'ingredients': ['1 kg chicken', '1/2 cup soy sauce',
                        '1/3 cup vinegar', '1 head garlic',
                        '3 bay leaves', '1 tsp peppercorns'],
        'instructions': ['Marinate the chicken in soy sauce and garlic.',
                         'Simmer with vinegar, bay leaves and pepper.',
                         'Reduce the sauce until glossy.'],
        'prep_time': 15, 'cook_time': 45, 'servings': 4,
        'difficulty': 'easy',
    },
    {
        'title': 'Sinigang na Baboy',
        'description': 'Sour tamarind soup with pork and vegetables.',
        'ingredients': ['1 kg pork ribs', 'tamarind soup base',
                        '2 tomatoes', '1 radish', 'kangkong'],
        'instructions': ['Boil the pork until tender.',
                         'Add tomatoes, radish and the tamarind base.',
                         'Finish with kangkong and season to taste.'],
        'prep_time': 20, 'cook_time': 60, 'servings': 6,
        'difficulty': 'medium',
    },
]


def seed_data(echo=print):
    """Idempotently create demo users, products and recipes."""
    users = {}
    for data in USERS:
        user = User.query.filter_by(email=data['email']).first()
        if not user:
            user = User(
                email=data['email'],
                name=data['name'],
                role=data['role'],
                email_verified=True)
            user.set_password(DEFAULT_PASSWORD)
            db.session.add(user)
            db.session.flush()
            echo(f"Created {data['role'].value}: {data['email']} / "
                 f"{DEFAULT_PASSWORD}")
        users[data['role']] = user

    seller = users[UserRole.SELLER]
    for data in PRODUCTS:
        if Product.query.filter_by(
                seller_id=seller.id, name=data['name']).first():
            continue
        db.session.add(Product(
            seller_id=seller.id,
            name=data['name'],
            description=data['description'],
            category=data['category'],
            price=Decimal(data['price']),
            stock=data['stock']))
        echo(f"Created product: {data['name']}")

    author = users[UserRole.ADMIN]
    for data in RECIPES:
        if Recipe.query.filter_by(title=data['title']).first():
            continue
        recipe = Recipe(
            author_id=author.id,
            title=data['title'],
            description=data['description'],
            prep_time=data['prep_time'],
            cook_time=data['cook_time'],
            servings=data['servings'],
            difficulty=data['difficulty'])
        recipe.ingredients = data['ingredients']
        recipe.instructions = data['instructions']
        db.session.add(recipe)
        echo(f"Created recipe: {data['title']}")

    db.session.commit()
    logger.info("Seed data ensured")
