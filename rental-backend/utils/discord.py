import json
import logging
import socket
import urllib.error
import urllib.request

import pendulum
from flask import current_app

from services.errors import UpstreamError
from utils import time_utils

logger = logging.getLogger(__name__)

FOOTER_TEXT = 'Hệ thống quản lý phòng trọ'
MAX_FIELDS = 25

COLOR_DEFAULT = 0x3498db
COLOR_PAYMENT_REMINDER = 0xe74c3c
COLOR_CONTRACT_EXPIRY = 0xf39c12
COLOR_TEST = 0x00ff00

STATUS_COLORS = {
    'online': 0x2ecc71,
    'warning': 0xf39c12,
    'error': 0xe74c3c,
    'maintenance': 0x9b59b6,
}


def webhook_url():
    return current_app.config.get('DISCORD_WEBHOOK_URL')


def build_embed(title, description, color=COLOR_DEFAULT, fields=None, footer_text=FOOTER_TEXT):
    return {
        'title': title,
        'description': description,
        'color': color,
        'fields': list(fields or []),
        'timestamp': pendulum.now('UTC').to_iso8601_string(),
        'footer': {'text': footer_text},
    }


def add_item_fields(embed, items, make_field, label):
    """Thêm tối đa 25 field; phần còn lại gộp thành một dòng thông báo."""
    for item in items[:MAX_FIELDS]:
        embed['fields'].append(make_field(item))
    if len(items) > MAX_FIELDS:
        embed['fields'].append({
            'name': '⚠️ Thông báo',
            'value': f'Và {len(items) - MAX_FIELDS} {label} khác...',
            'inline': False,
        })
    return embed


def format_vnd(amount):
    try:
        value = float(amount or 0)
    except (TypeError, ValueError):
        value = 0
    return f"{value:,.0f}".replace(',', '.') + ' ₫'


def format_date(value):
    parsed = time_utils.to_datetime(value) if value else None
    return parsed.strftime('%d/%m/%Y') if parsed else 'N/A'


def payment_field(payment):
    room = payment.get('room') or {}
    tenant = payment.get('tenant') or {}
    return {
        'name': f"Phòng {room.get('number') or 'N/A'}",
        'value': (f"👤 {tenant.get('name') or 'N/A'}\n"
                  f"📅 Hạn: {format_date(payment.get('dueDate'))}\n"
                  f"💰 Số tiền: {format_vnd(payment.get('totalAmount'))}"),
        'inline': True,
    }


def contract_field(contract):
    room = contract.get('room') or {}
    tenant = contract.get('tenant') or {}
    end_date = time_utils.to_date(contract.get('endDate')) if contract.get('endDate') else None
    days_left = (end_date - time_utils.today()).days if end_date else 'N/A'
    return {
        'name': f"Hợp đồng {contract.get('contractNumber') or 'N/A'}",
        'value': (f"🏠 Phòng: {room.get('number') or 'N/A'}\n"
                  f"👤 Khách: {tenant.get('name') or 'N/A'}\n"
                  f"📅 Hết hạn: {format_date(contract.get('endDate'))}\n"
                  f"⏳ Còn: {days_left} ngày"),
        'inline': True,
    }


def payment_reminder_embed(payments):
    embed = build_embed('🔔 Nhắc nhở thanh toán', f'Có {len(payments)} phòng cần thanh toán',
                        COLOR_PAYMENT_REMINDER)
    return add_item_fields(embed, payments, payment_field, 'phòng')


def contract_expiry_embed(contracts):
    embed = build_embed('⏰ Hợp đồng sắp hết hạn', f'Có {len(contracts)} hợp đồng sắp hết hạn',
                        COLOR_CONTRACT_EXPIRY)
    return add_item_fields(embed, contracts, contract_field, 'hợp đồng')


def system_status_embed(status, message, details=None, color=None):
    embed = build_embed('🖥️ Trạng thái hệ thống', message,
                        color or STATUS_COLORS.get(status, COLOR_DEFAULT))
    details = details or {}
    for key, name in (('uptime', '⏱️ Uptime'), ('dbStatus', '🗄️ Database'),
                      ('memoryUsage', '💾 Memory'), ('activeConnections', '👥 Connections')):
        if details.get(key):
            embed['fields'].append({'name': name, 'value': str(details[key]), 'inline': True})
    return embed


def test_embed():
    return build_embed(
        '✅ Test Discord Webhook',
        'Đây là tin nhắn test từ hệ thống quản lý phòng trọ',
        COLOR_TEST,
        [
            {'name': 'Thời gian', 'value': time_utils.now().strftime('%d/%m/%Y %H:%M:%S'), 'inline': True},
            {'name': 'Trạng thái', 'value': 'Hoạt động bình thường', 'inline': True},
        ],
    )


def send_discord_webhook(embed):
    url = webhook_url()
    if not url:
        raise UpstreamError('Discord webhook URL chưa được cấu hình', 'Discord webhook URL chưa được cấu hình')

    body = json.dumps({'embeds': [embed]}).encode('utf-8')
    request = urllib.request.Request(
        url,
        data=body,
        headers={'Content-Type': 'application/json', 'User-Agent': 'RentalBackend-Discord'},
        method='POST',
    )
    try:
        with urllib.request.urlopen(request, timeout=current_app.config.get('DISCORD_TIMEOUT', 10)) as response:
            payload = response.read().decode('utf-8')
    except (urllib.error.URLError, socket.timeout) as e:
        logger.error(f"Discord webhook error: {str(e)}")
        raise UpstreamError('Lỗi gửi Discord webhook', str(e))
    logger.info('Discord webhook sent')
    return json.loads(payload) if payload else None


def fetch_webhook_info():
    """GET webhook URL; Discord trả về name/channel_id/guild_id của webhook."""
    request = urllib.request.Request(webhook_url(), headers={'User-Agent': 'RentalBackend-Discord'})
    with urllib.request.urlopen(request, timeout=current_app.config.get('DISCORD_TIMEOUT', 10)) as response:
        return json.loads(response.read().decode('utf-8'))
