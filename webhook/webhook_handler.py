"""
Webhook server for the affiliate engine.

Inbound order and cancellation events from the commerce platform, plus the
partner-facing query endpoints. Every POST body is a JSON object signed with
HMAC-SHA256 over its canonical form (sorted keys, no whitespace) without the
signature field itself.
"""

import logging
import json
import hashlib
import hmac
from datetime import date, datetime, timezone
from decimal import Decimal
from functools import partial
from typing import Any, Dict, Optional

from aiohttp import web

from config import Config, ConfigurationError
from core.db import get_db_session_ctx
from affiliate_system.errors import AffiliateError, ValidationError
from affiliate_system.events.event_bus import eventBus, AffiliateEvents
from affiliate_system.services.payment_batch_service import PaymentBatchService
from affiliate_system.services.stats_service import StatsService
from affiliate_system.utils.validators import parse_positive_int

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1024 * 100
MAX_CLOCK_SKEW_SECONDS = 300

HTTP_STATUS_BY_CODE = {
    "NOT_FOUND": 404,
    "VALIDATION_ERROR": 400,
    "INVALID_TRANSITION": 409,
    "SYSTEM_ERROR": 503,
    "CONFIGURATION_ERROR": 500,
}


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


json_dumps = partial(json.dumps, default=_json_default)


def json_response(data: Dict[str, Any], status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=json_dumps)


def error_response(error: AffiliateError) -> web.Response:
    return json_response(error.to_dict(), status=HTTP_STATUS_BY_CODE.get(error.code, 500))


def sign_payload(secretKey: str, data: Dict[str, Any]) -> str:
    """Signature of a payload, computed without its 'signature' field."""
    unsigned = {k: v for k, v in data.items() if k != 'signature'}
    payloadJson = json.dumps(unsigned, sort_keys=True, separators=(',', ':'), default=_json_default)
    return hmac.new(
        secretKey.encode('utf-8'),
        payloadJson.encode('utf-8'),
        hashlib.sha256
    ).hexdigest()


class WebhookHandler:
    """HTTP surface of the affiliate engine."""

    def __init__(self, secret_key: str = None):
        self.secret_key = secret_key or Config.get(Config.WEBHOOK_SECRET_KEY)

        if not self.secret_key:
            logger.critical("WEBHOOK_SECRET_KEY is not properly configured!")
            raise ConfigurationError("WEBHOOK_SECRET_KEY must be set in environment")

        self.app = web.Application()

        # Metrics
        self.request_count = 0
        self.error_count = 0
        self.last_request_time = None
        self.start_time = datetime.now(timezone.utc)

        self.setup_routes()
        self.setup_middleware()

    def setup_routes(self):
        # Ingestion
        self.app.router.add_post('/affiliate/orders', self.handle_order)
        self.app.router.add_post('/affiliate/cancellations', self.handle_cancellation)

        # Partner queries
        self.app.router.add_post('/affiliate/dashboard', self.handle_dashboard)
        self.app.router.add_post('/affiliate/my-customers', self.handle_my_customers)
        self.app.router.add_post('/affiliate/customer-detail', self.handle_customer_detail)
        self.app.router.add_post('/affiliate/payment-history', self.handle_payment_history)

        # Admin
        self.app.router.add_post('/affiliate/admin/payment-batch', self.handle_payment_batch)

        self.app.router.add_get('/affiliate/health', self.handle_health)

    def setup_middleware(self):

        @web.middleware
        async def error_middleware(request, handler):
            """Maps engine errors to HTTP responses."""
            logger.info(f"Request: {request.method} {request.path}")
            try:
                return await handler(request)
            except web.HTTPException:
                raise
            except AffiliateError as e:
                logger.warning(f"{request.path} rejected: {e.code} {e.message}")
                return error_response(e)
            except ConfigurationError as e:
                logger.error(f"Configuration error on {request.path}: {e}")
                self.error_count += 1
                return json_response(
                    {"success": False, "error": str(e), "code": ConfigurationError.code},
                    status=500
                )
            except Exception as e:
                logger.error(f"Error processing request: {e}", exc_info=True)
                self.error_count += 1
                return json_response(
                    {"success": False, "error": "Internal server error", "code": "SYSTEM_ERROR"},
                    status=500
                )

        self.app.middlewares.append(error_middleware)

    # ═══════════════════════════════════════════════════════════════════
    # REQUEST VALIDATION
    # ═══════════════════════════════════════════════════════════════════

    def verify_signature(self, data: Dict[str, Any], signature: str) -> bool:
        if not signature:
            logger.warning("No signature provided in request")
            return False

        expected = sign_payload(self.secret_key, data)
        is_valid = hmac.compare_digest(expected, signature)
        if not is_valid:
            logger.warning(f"Invalid signature. Expected: {expected[:10]}..., Got: {signature[:10]}...")
        return is_valid

    def check_timestamp(self, data: Dict[str, Any]) -> bool:
        """Rejects replayed requests. Timestamp is optional."""
        timestamp = data.get('timestamp')
        if timestamp is None:
            return True
        try:
            requestTime = datetime.fromisoformat(str(timestamp).replace('Z', '+00:00'))
        except ValueError:
            return False
        if requestTime.tzinfo is None:
            requestTime = requestTime.replace(tzinfo=timezone.utc)
        return abs((datetime.now(timezone.utc) - requestTime).total_seconds()) <= MAX_CLOCK_SKEW_SECONDS

    async def read_signed_json(self, request: web.Request) -> Dict[str, Any]:
        """
        Read, size-check and authenticate a JSON body.

        Raises:
            web.HTTPException: Body too large, malformed, stale or unsigned
        """
        self.request_count += 1
        self.last_request_time = datetime.now(timezone.utc)

        body = await request.read()
        if len(body) > MAX_BODY_BYTES:
            logger.warning(f"Request body too large: {len(body)} bytes")
            raise web.HTTPRequestEntityTooLarge(max_size=MAX_BODY_BYTES, actual_size=len(body))

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON: {e}")
            raise web.HTTPBadRequest(
                text=json_dumps({"success": False, "error": "Invalid JSON", "code": "VALIDATION_ERROR"}),
                content_type='application/json'
            )
        if not isinstance(data, dict):
            raise web.HTTPBadRequest(
                text=json_dumps({"success": False, "error": "JSON object expected", "code": "VALIDATION_ERROR"}),
                content_type='application/json'
            )

        if not self.check_timestamp(data):
            raise web.HTTPBadRequest(
                text=json_dumps({"success": False, "error": "Request expired", "code": "VALIDATION_ERROR"}),
                content_type='application/json'
            )

        if not self.verify_signature(data, data.get('signature', '')):
            raise web.HTTPUnauthorized(
                text=json_dumps({"success": False, "error": "Invalid signature", "code": "UNAUTHORIZED"}),
                content_type='application/json'
            )

        data.pop('signature', None)
        data.pop('timestamp', None)
        return data

    @staticmethod
    def _partner_id(data: Dict[str, Any]) -> int:
        if data.get('partner_id') is None:
            raise ValidationError("partner_id is required")
        return parse_positive_int(data['partner_id'], 'partner_id', 0)

    # ═══════════════════════════════════════════════════════════════════
    # INGESTION
    # ═══════════════════════════════════════════════════════════════════

    async def _dispatch(self, event: str, data: Dict[str, Any]) -> web.Response:
        results = await eventBus.emit(event, data)
        result: Optional[Dict[str, Any]] = next((r for r in results if isinstance(r, dict)), None)

        if result is None:
            logger.error(f"No handler produced a result for {event}")
            self.error_count += 1
            return json_response(
                {"success": False, "error": "Event not processed", "code": "SYSTEM_ERROR"},
                status=503
            )

        # Business rejections (invalid orders) are a processed event, not an HTTP error
        if result.get("code"):
            return json_response(result, status=HTTP_STATUS_BY_CODE.get(result["code"], 500))
        return json_response(result)

    async def handle_order(self, request: web.Request) -> web.Response:
        data = await self.read_signed_json(request)
        return await self._dispatch(AffiliateEvents.ORDER_RECEIVED, data)

    async def handle_cancellation(self, request: web.Request) -> web.Response:
        data = await self.read_signed_json(request)
        return await self._dispatch(AffiliateEvents.INVOICE_CANCELLED, data)

    # ═══════════════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════════════

    async def handle_dashboard(self, request: web.Request) -> web.Response:
        data = await self.read_signed_json(request)
        partnerId = self._partner_id(data)
        with get_db_session_ctx() as session:
            result = await StatsService(session).getDashboard(partnerId)
        return json_response(result)

    async def handle_my_customers(self, request: web.Request) -> web.Response:
        data = await self.read_signed_json(request)
        partnerId = self._partner_id(data)
        with get_db_session_ctx() as session:
            result = await StatsService(session).getMyCustomers(
                partnerId,
                searchPhone=data.get('search_phone'),
                page=data.get('page', 1),
                limit=data.get('limit', 20)
            )
        return json_response(result)

    async def handle_customer_detail(self, request: web.Request) -> web.Response:
        data = await self.read_signed_json(request)
        partnerId = self._partner_id(data)
        with get_db_session_ctx() as session:
            result = await StatsService(session).getCustomerDetail(partnerId, data.get('f1_phone'))
        return json_response(result)

    async def handle_payment_history(self, request: web.Request) -> web.Response:
        data = await self.read_signed_json(request)
        partnerId = self._partner_id(data)
        with get_db_session_ctx() as session:
            result = await StatsService(session).getPaymentHistory(
                partnerId,
                action=data.get('action'),
                batchId=data.get('batch_id')
            )
        return json_response(result)

    async def handle_payment_batch(self, request: web.Request) -> web.Response:
        data = await self.read_signed_json(request)
        with get_db_session_ctx() as session:
            result = await PaymentBatchService(session).processPaymentBatch(
                data.get('payment_month'),
                data.get('admin_user_id'),
                adminUserName=data.get('admin_user_name'),
                notes=data.get('notes')
            )
        logger.info(f"Payment batch {result.get('batchId')} processed via webhook")
        return json_response(result)

    async def handle_health(self, request: web.Request) -> web.Response:
        return json_response({
            'status': 'ok',
            'timestamp': datetime.now(timezone.utc),
            'uptime': (datetime.now(timezone.utc) - self.start_time).total_seconds(),
            'requests_total': self.request_count,
            'errors_total': self.error_count,
        })

    async def start(self, host: str = '127.0.0.1', port: int = 8080) -> web.AppRunner:
        if host == '0.0.0.0':
            logger.warning("⚠️ Webhook server listening on all interfaces!")

        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        await site.start()

        logger.info(f"🔒 Affiliate webhook server started on {host}:{port}")
        return runner


async def start_webhook_server() -> web.AppRunner:
    """Start the webhook server with configured host and port."""
    try:
        handler = WebhookHandler()
        host = Config.get(Config.WEBHOOK_HOST, '127.0.0.1')
        port = Config.get(Config.WEBHOOK_PORT, 8080)
        return await handler.start(host=host, port=int(port) if port else 8080)
    except ConfigurationError as e:
        logger.critical(f"Failed to start webhook server: {e}")
        raise
