def test_security_headers_on_json_responses(client):
    response = client.get('/health')
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['X-Frame-Options'] == 'DENY'
    assert "default-src 'none'" in response.headers['Content-Security-Policy']


def test_unknown_route_returns_json_404(client):
    response = client.get('/api/does-not-exist')
    assert response.status_code == 404
    assert response.json == {"error": "Not found"}


def test_wrong_method_returns_json_405(client):
    response = client.delete('/health')
    assert response.status_code == 405
    assert response.json['error'] == 'Method not allowed'
