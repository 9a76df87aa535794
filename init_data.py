from lawlaw import create_app
from lawlaw.extensions import db
from lawlaw.seed import seed_data

app = create_app()

with app.app_context():
    # Tables normally come from `flask db upgrade`
    db.create_all()
    seed_data()
    print("Initial data ready.")
