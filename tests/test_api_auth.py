# tests/test_api_auth.py
import datetime as dt

import jwt


def login(client, username='admin', password='adminpass'):
    return client.post('/api/admin/login', json={'username': username, 'password': password})


# Test admin login API
def test_admin_login(client):
    response = login(client)
    assert response.status_code == 200
    assert 'token' in response.json
    assert isinstance(response.json['token'], str)


# Test login with invalid credentials
def test_login_invalid_credentials(client):
    response = login(client, password='wrongpassword')
    assert response.status_code == 401
    assert 'Invalid credentials' in response.json['message']


def test_login_missing_fields(client):
    response = client.post('/api/admin/login', json={'username': 'admin'})
    assert response.status_code == 400


def test_login_without_configured_admin(app, client):
    app.config['ADMIN_PASSWORD_HASH'] = None
    response = login(client)
    assert response.status_code == 401


# Test protected route access
def test_protected_route_access(client):
    token = login(client).json['token']
    response = client.get('/api/admin/dashboard', headers={'x-access-token': token})
    assert response.status_code == 200


# Test protected route access without token
def test_protected_route_no_token(client):
    response = client.get('/api/admin/charges')
    assert response.status_code == 401
    assert 'Token is missing!' in response.json['message']


# Test protected route access with invalid token
def test_protected_route_invalid_token(client):
    response = client.get('/api/admin/charges', headers={'x-access-token': 'invalid.token.here'})
    assert response.status_code == 401
    assert 'Token is invalid!' in response.json['message']


def test_protected_route_expired_token(app, client):
    token = jwt.encode({'sub': 'admin', 'role': 'admin',
                        'exp': dt.datetime.now(dt.timezone.utc) - dt.timedelta(minutes=1)},
                       app.config['SECRET_KEY'], algorithm='HS256')
    response = client.get('/api/admin/charges', headers={'x-access-token': token})
    assert response.status_code == 401
    assert 'Token has expired!' in response.json['message']


def test_protected_route_requires_admin_role(app, client):
    token = jwt.encode({'sub': 'someone', 'role': 'user'}, app.config['SECRET_KEY'], algorithm='HS256')
    response = client.get('/api/admin/charges', headers={'x-access-token': token})
    assert response.status_code == 403
    assert 'Admin access required!' in response.json['message']
