from datetime import datetime

import app as webapp


class TestRoutes:
    def test_index_returns_html(self, client):
        res = client.get('/')
        assert res.status_code == 200
        assert res.mimetype == 'text/html'
        assert b'DevOps Portfolio Application' in res.data

    def test_health(self, client):
        res = client.get('/health')
        assert res.status_code == 200
        body = res.get_json()
        assert body['status'] == 'healthy'
        assert body['version'] == webapp.APP_VERSION
        datetime.fromisoformat(body['timestamp'])

    def test_info(self, client):
        res = client.get('/api/info')
        assert res.status_code == 200
        body = res.get_json()
        assert body['message'] == 'DevOps Portfolio Application'
        assert body['environment'] == webapp.APP_ENV
        assert body['version'] == webapp.APP_VERSION
        assert body['hostname']

    def test_unknown_route(self, client):
        res = client.get('/nonexistent')
        assert res.status_code == 404
        assert res.get_json() == {'error': 'Route not found'}

    def test_wrong_method_keeps_status(self, client):
        res = client.post('/health')
        assert res.status_code == 405


class TestErrorHandling:
    def test_unhandled_error_returns_json_500(self, client, monkeypatch):
        def boom():
            raise RuntimeError('kaboom')

        monkeypatch.setitem(webapp.app.view_functions, 'info', boom)
        res = client.get('/api/info')
        assert res.status_code == 500
        assert res.get_json() == {'error': 'Something went wrong!'}


class TestMiddleware:
    def test_security_headers(self, client):
        res = client.get('/health')
        for header, value in webapp.SECURITY_HEADERS.items():
            assert res.headers[header] == value

    def test_metrics_count_requests(self, client):
        client.get('/health')
        res = client.get('/metrics')
        assert res.status_code == 200
        text = res.get_data(as_text=True)
        assert 'app_http_requests_total' in text
        assert 'endpoint="health"' in text
        assert 'endpoint="metrics"' not in text
