"""
Tests for the visit and membership HTTP endpoints.
"""
import pytest

from app.extensions import db
from app.models import Customer, Membership

CUSTOMER_PHONE = '+56911112222'

# ~1.1 km north of the geofence center
FAR_LAT = -33.4389


class TestStampEndpoint:

    def test_stamp_card_visit(self, client, sample_tenant, sample_customer, make_program):
        make_program('sellos', goal=10)

        response = client.post('/api/stamp', json={'tenant_id': sample_tenant.id, 'whatsapp': CUSTOMER_PHONE})

        assert response.status_code == 200
        data = response.get_json()
        assert data['tipo_programa'] == 'sellos'
        assert data['puntos_actuales'] == 1
        assert data['puntos_meta'] == 10
        assert data['llegoAMeta'] is False
        assert '1/10' in data['message']
        assert data['rango'] == 'bronce'
        assert data['racha'] == 1

    def test_alternate_field_names(self, client, sample_tenant, sample_customer, make_program):
        make_program('cashback', config={'porcentaje': 10})

        response = client.post('/api/stamp', json={
            'tenant_id': str(sample_tenant.id),
            'customer_phone': CUSTOMER_PHONE,
            'purchase_amount': '2500',
        })

        assert response.status_code == 200
        assert response.get_json()['cashback_ganado'] == 250

    def test_repeat_visit(self, client, sample_tenant, sample_customer, make_program):
        make_program('sellos')
        payload = {'tenant_id': sample_tenant.id, 'whatsapp': CUSTOMER_PHONE}

        client.post('/api/stamp', json=payload)
        response = client.post('/api/stamp', json=payload)

        assert response.status_code == 409
        data = response.get_json()
        assert data['code'] == 'ALREADY_VISITED_TODAY'
        assert data['alreadyStamped'] is True
        assert data['puntos_actuales'] == 1

    @pytest.mark.parametrize('payload', [
        {},
        {'tenant_id': 1},
        {'whatsapp': CUSTOMER_PHONE},
        {'tenant_id': '', 'whatsapp': CUSTOMER_PHONE},
    ])
    def test_missing_fields(self, client, payload):
        response = client.post('/api/stamp', json=payload)

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'MISSING_FIELD'

    def test_invalid_tenant_id(self, client):
        response = client.post('/api/stamp', json={'tenant_id': 'cafe', 'whatsapp': CUSTOMER_PHONE})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_FIELD'

    def test_unknown_customer(self, client, sample_tenant, make_program):
        make_program('sellos')

        response = client.post('/api/stamp', json={'tenant_id': sample_tenant.id, 'whatsapp': '+56900000000'})

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'CUSTOMER_NOT_FOUND'

    def test_unknown_tenant(self, client, sample_customer):
        response = client.post('/api/stamp', json={'tenant_id': 9999, 'whatsapp': CUSTOMER_PHONE})

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'TENANT_NOT_FOUND'

    def test_too_far(self, client, geofenced_tenant, make_program):
        make_program('afiliacion', tenant_id=geofenced_tenant.id)
        db.session.add(Customer(tenant_id=geofenced_tenant.id, phone=CUSTOMER_PHONE))
        db.session.commit()

        response = client.post('/api/stamp', json={
            'tenant_id': geofenced_tenant.id,
            'whatsapp': CUSTOMER_PHONE,
            'lat': FAR_LAT,
            'lng': geofenced_tenant.lng,
        })

        assert response.status_code == 403
        error = response.get_json()['error']
        assert error['code'] == 'TOO_FAR'
        assert error['distancia_metros'] > 1000
        assert error['radio_metros'] == 200

    def test_insufficient_balance_details(self, client, sample_tenant, sample_customer, make_program,
                                          make_membership):
        program = make_program('regalo')
        make_membership(program, balance=1000)

        response = client.post('/api/stamp', json={
            'tenant_id': sample_tenant.id,
            'whatsapp': CUSTOMER_PHONE,
            'monto_compra': 1500,
        })

        assert response.status_code == 400
        error = response.get_json()['error']
        assert error['code'] == 'INSUFFICIENT_BALANCE'
        assert error['saldo'] == 1000
        assert error['requerido'] == 1500


class TestMembershipEndpoint:

    def test_activate(self, client, sample_tenant, sample_customer, make_program):
        make_program('regalo')

        response = client.post('/api/membership', json={
            'tenant_id': sample_tenant.id,
            'whatsapp': CUSTOMER_PHONE,
            'monto': 15000,
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['tipo'] == 'regalo'
        assert data['saldo'] == 15000
        assert Membership.query.count() == 1

    def test_activate_twice(self, client, sample_tenant, sample_customer, make_program):
        make_program('multipase')
        payload = {'tenant_id': sample_tenant.id, 'whatsapp': CUSTOMER_PHONE}

        client.post('/api/membership', json=payload)
        response = client.post('/api/membership', json=payload)

        assert response.status_code == 409
        assert response.get_json()['error']['code'] == 'MEMBERSHIP_ALREADY_ACTIVE'

    def test_activate_missing_fields(self, client):
        response = client.post('/api/membership', json={'whatsapp': CUSTOMER_PHONE})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'MISSING_FIELD'

    def test_list(self, client, sample_tenant, sample_customer, make_program):
        make_program('multipase', config={'cantidad_usos': 6})
        client.post('/api/membership', json={'tenant_id': sample_tenant.id, 'whatsapp': CUSTOMER_PHONE})

        response = client.get(f'/api/membership?tenant_id={sample_tenant.id}&whatsapp=%2B56911112222')

        assert response.status_code == 200
        memberships = response.get_json()['memberships']
        assert len(memberships) == 1
        assert memberships[0]['usos_restantes'] == 6

    def test_list_missing_params(self, client):
        response = client.get('/api/membership')

        assert response.status_code == 400


class TestAppShell:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'healthy', 'service': 'vuelve'}

    def test_unknown_route(self, client):
        response = client.get('/api/nope')

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'NOT_FOUND'

    def test_method_not_allowed(self, client):
        response = client.get('/api/stamp')

        assert response.status_code == 405
