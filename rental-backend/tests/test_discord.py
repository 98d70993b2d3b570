import json
import urllib.error
import urllib.request

import pytest

from utils import discord


@pytest.fixture
def sent(monkeypatch):
    embeds = []
    monkeypatch.setattr(discord, 'send_discord_webhook', embeds.append)
    return embeds


def payment_item(number):
    return {
        'room': {'number': str(number)},
        'tenant': {'name': f'Khách {number}'},
        'dueDate': '2024-01-05',
        'totalAmount': 800000,
    }


def test_format_vnd():
    assert discord.format_vnd(800000) == '800.000 ₫'
    assert discord.format_vnd('1234567.6') == '1.234.568 ₫'
    assert discord.format_vnd(None) == '0 ₫'


def test_payment_reminder_embed_caps_fields():
    embed = discord.payment_reminder_embed([payment_item(n) for n in range(30)])

    assert embed['description'] == 'Có 30 phòng cần thanh toán'
    assert embed['color'] == discord.COLOR_PAYMENT_REMINDER
    assert len(embed['fields']) == 26
    assert embed['fields'][0]['value'] == '👤 Khách 0\n📅 Hạn: 05/01/2024\n💰 Số tiền: 800.000 ₫'
    assert embed['fields'][-1]['value'] == 'Và 5 phòng khác...'


def test_contract_expiry_embed_counts_days_left(app, clock):
    contract = {'contractNumber': 'HD20240001', 'room': {'number': '101'},
                'tenant': {'name': 'An'}, 'endDate': '2024-01-08'}

    embed = discord.contract_expiry_embed([contract])

    assert embed['fields'][0]['name'] == 'Hợp đồng HD20240001'
    assert embed['fields'][0]['value'].endswith('⏳ Còn: 7 ngày')


def test_notify_builds_custom_embed(client, sent):
    response = client.post('/api/discord/notify', json={
        'title': 'Cúp nước',
        'description': 'Tạm ngưng cấp nước 2 giờ',
        'fields': [{'name': 'Khu', 'value': 'A'}],
        'thumbnail': {'url': 'https://example.com/a.png'},
    })

    assert response.status_code == 200
    assert response.get_json()['message'] == 'Gửi thông báo Discord thành công'
    embed = sent[0]
    assert embed['title'] == 'Cúp nước'
    assert embed['footer'] == {'text': 'Quản lý phòng trọ'}
    assert embed['thumbnail'] == {'url': 'https://example.com/a.png'}
    assert 'image' not in embed


def test_notify_requires_title_and_description(client, sent):
    response = client.post('/api/discord/notify', json={'title': 'Thiếu mô tả'})

    assert response.status_code == 400
    assert response.get_json()['errors'] == ['Tiêu đề và mô tả là bắt buộc']
    assert sent == []


def test_reminder_routes_validate_lists(client, sent):
    assert client.post('/api/discord/payment-reminder', json={'payments': []}).status_code == 400
    assert client.post('/api/discord/contract-expiry', json={}).status_code == 400

    response = client.post('/api/discord/payment-reminder', json={'payments': [payment_item(101)]})
    assert response.status_code == 200
    assert sent[0]['fields'][0]['name'] == 'Phòng 101'


def test_system_status_details(client, sent):
    client.post('/api/discord/system-status', json={
        'status': 'warning',
        'message': 'Bộ nhớ cao',
        'details': {'uptime': '2 giờ', 'memoryUsage': '90%'},
    })

    embed = sent[0]
    assert embed['color'] == discord.STATUS_COLORS['warning']
    assert [field['name'] for field in embed['fields']] == ['⏱️ Uptime', '💾 Memory']


def test_unconfigured_webhook_returns_500(client):
    response = client.get('/api/discord/test')

    assert response.status_code == 500
    assert response.get_json() == {
        'success': False,
        'message': 'Discord webhook URL chưa được cấu hình',
        'error': 'Discord webhook URL chưa được cấu hình',
    }


def test_webhook_network_error(app, client, monkeypatch):
    app.config['DISCORD_WEBHOOK_URL'] = 'https://discord.example/api/webhooks/1/abc'

    def fail(request, timeout=None):
        raise urllib.error.URLError('connection refused')

    monkeypatch.setattr(urllib.request, 'urlopen', fail)

    response = client.get('/api/discord/test')

    assert response.status_code == 500
    assert response.get_json()['message'] == 'Lỗi gửi Discord webhook'


def test_webhook_posts_embed(app, client, monkeypatch):
    app.config['DISCORD_WEBHOOK_URL'] = 'https://discord.example/api/webhooks/1/abc'
    captured = {}

    class FakeResponse:
        def __enter__(self):
            return self

        def __exit__(self, *args):
            return False

        def read(self):
            return b''

    def fake_urlopen(request, timeout=None):
        captured['url'] = request.full_url
        captured['body'] = json.loads(request.data.decode('utf-8'))
        return FakeResponse()

    monkeypatch.setattr(urllib.request, 'urlopen', fake_urlopen)

    assert client.get('/api/discord/test').status_code == 200
    assert captured['url'] == 'https://discord.example/api/webhooks/1/abc'
    assert captured['body']['embeds'][0]['title'] == '✅ Test Discord Webhook'


def test_webhook_info(app, client, monkeypatch):
    assert client.get('/api/discord/webhook-info').get_json()['data']['configured'] is False

    app.config['DISCORD_WEBHOOK_URL'] = 'https://discord.example/api/webhooks/1/abc'
    monkeypatch.setattr(discord, 'fetch_webhook_info',
                        lambda: {'name': 'Phòng trọ', 'channel_id': '10', 'guild_id': '20'})
    data = client.get('/api/discord/webhook-info').get_json()['data']
    assert data['status'] == 'active'
    assert data['webhookInfo']['name'] == 'Phòng trọ'

    def offline():
        raise urllib.error.URLError('timeout')

    monkeypatch.setattr(discord, 'fetch_webhook_info', offline)
    data = client.get('/api/discord/webhook-info').get_json()['data']
    assert data == {'configured': True, 'status': 'inactive', 'error': '<urlopen error timeout>'}
