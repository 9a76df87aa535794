from lawlaw.models import AuditLog, User, UserRole


def test_register_and_me(client):
    response = client.post('/api/auth/register', json={
        'email': 'New@Example.com',
        'password': 'secret123',
        'name': 'New User',
        'role': 'seller',
    })
    assert response.status_code == 201
    user = response.get_json()['user']
    assert user['email'] == 'new@example.com'
    assert user['role'] == 'seller'
    assert user['email_verified'] is False

    me = client.get('/api/auth/me').get_json()['user']
    assert me['id'] == user['id']


def test_register_rejects_admin_and_duplicates(client, buyer):
    response = client.post('/api/auth/register', json={
        'email': 'boss@example.com', 'password': 'secret123',
        'role': 'admin'})
    assert response.status_code == 400

    response = client.post('/api/auth/register', json={
        'email': buyer.email, 'password': 'secret123'})
    assert response.status_code == 400
    assert User.query.filter_by(role=UserRole.ADMIN).count() == 0


def test_login_failure_is_audited(client, buyer):
    response = client.post('/api/auth/login', json={
        'email': buyer.email, 'password': 'wrong-password'})
    assert response.status_code == 401
    audit = AuditLog.query.filter_by(action='LOGIN_FAILED').one()
    assert audit.get_payload() == {'reason': 'invalid_credentials'}


def test_blocked_user_cannot_login(client, login, admin, buyer):
    login(admin)
    response = client.post(f'/api/admin/users/{buyer.id}/block', json={})
    assert response.status_code == 200
    assert response.get_json()['user']['is_active'] is False

    client.post('/api/auth/logout')
    response = client.post('/api/auth/login', json={
        'email': buyer.email, 'password': 'secret123'})
    assert response.status_code == 403


def test_logout(client, login, buyer):
    login(buyer)
    assert client.post('/api/auth/logout').status_code == 200
    assert client.get('/api/auth/me').status_code == 401
