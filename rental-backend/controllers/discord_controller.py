from flask import Blueprint
from services.errors import ValidationError
from utils import discord
from utils.responses import success, request_data
import socket
import urllib.error
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

discord_bp = Blueprint('discord', __name__)


# Gửi thông báo tùy chỉnh
@discord_bp.route('/discord/notify', methods=['POST'])
def notify():
    data = request_data()
    title = data.get('title')
    description = data.get('description')
    if not title or not description:
        raise ValidationError('Tiêu đề và mô tả là bắt buộc')

    footer = data.get('footer') or {}
    embed = discord.build_embed(
        title,
        description,
        data.get('color') or discord.COLOR_DEFAULT,
        data.get('fields') or [],
        footer.get('text') or 'Quản lý phòng trọ',
    )
    if footer.get('icon_url'):
        embed['footer']['icon_url'] = footer['icon_url']
    for key in ('thumbnail', 'image'):
        value = data.get(key) or {}
        if value.get('url'):
            embed[key] = value

    discord.send_discord_webhook(embed)
    logger.info(f"Sent Discord notification: {title}")
    return success(message='Gửi thông báo Discord thành công')


@discord_bp.route('/discord/payment-reminder', methods=['POST'])
def payment_reminder():
    payments = request_data().get('payments')
    if not isinstance(payments, list) or not payments:
        raise ValidationError('Danh sách thanh toán không hợp lệ')
    discord.send_discord_webhook(discord.payment_reminder_embed(payments))
    logger.info(f"Sent payment reminder for {len(payments)} rooms")
    return success(message='Gửi nhắc nhở thanh toán thành công')


@discord_bp.route('/discord/contract-expiry', methods=['POST'])
def contract_expiry():
    contracts = request_data().get('contracts')
    if not isinstance(contracts, list) or not contracts:
        raise ValidationError('Danh sách hợp đồng không hợp lệ')
    discord.send_discord_webhook(discord.contract_expiry_embed(contracts))
    logger.info(f"Sent contract expiry notice for {len(contracts)} contracts")
    return success(message='Gửi thông báo hợp đồng sắp hết hạn thành công')


@discord_bp.route('/discord/system-status', methods=['POST'])
def system_status():
    data = request_data()
    status = data.get('status', 'online')
    embed = discord.system_status_embed(
        status,
        data.get('message', 'Hệ thống hoạt động bình thường'),
        data.get('details') or {},
        data.get('color'),
    )
    discord.send_discord_webhook(embed)
    logger.info(f"Sent system status: {status}")
    return success(message='Gửi trạng thái hệ thống thành công')


@discord_bp.route('/discord/test', methods=['GET'])
def test_webhook():
    discord.send_discord_webhook(discord.test_embed())
    logger.info('Discord webhook test succeeded')
    return success(message='Test Discord webhook thành công')


@discord_bp.route('/discord/webhook-info', methods=['GET'])
def webhook_info():
    if not discord.webhook_url():
        return success({'configured': False, 'message': 'Discord webhook chưa được cấu hình'})
    try:
        info = discord.fetch_webhook_info()
    except (urllib.error.URLError, socket.timeout, ValueError) as e:
        logger.warning(f"Discord webhook inactive: {str(e)}")
        return success({'configured': True, 'status': 'inactive', 'error': str(e)})
    return success({
        'configured': True,
        'status': 'active',
        'webhookInfo': {
            'name': info.get('name'),
            'avatar': info.get('avatar'),
            'channel_id': info.get('channel_id'),
            'guild_id': info.get('guild_id'),
        },
    })
