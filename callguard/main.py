"""
CallGuard Compliance Engine - FastAPI Application
Provides webhook verification, consent tracking, the outbound call gate and retention sweeps
"""

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional
import asyncio
import json
import logging
import structlog

from pydantic import BaseModel, Field

from .config import get_config
from .constants import SERVICE_NAME, SERVICE_VERSION, WebhookHeaders
from .compliance.gate import ComplianceDecision, get_compliance_gate
from .consent.ledger import get_consent_ledger
from .consent.models import ConsentChannel, ConsentRecord, ConsentSource
from .crypto.encrypt import get_encryption_service, mask_for_display
from .exceptions import SecurityError, StoreUnavailableError, ValidationError
from .retention.sweeper import RetentionScheduler, SweepReport, get_retention_sweeper
from .webhooks.models import WebhookEvent
from .webhooks.verifier import get_webhook_verifier, verify_integration_hmac

settings = get_config()

# Configure structured logging
logging.basicConfig(format="%(message)s", level=getattr(logging, settings.log_level.upper(), logging.INFO))
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

INVALID_WEBHOOK = {"detail": "Invalid webhook"}

# Services, replaceable before startup for testing/injection
encryption_service = None
webhook_verifier = None
consent_ledger = None
compliance_gate = None
retention_sweeper = None
retention_scheduler: Optional[RetentionScheduler] = None


class GrantRequest(BaseModel):
    channel: ConsentChannel
    source: ConsentSource
    proof: Optional[str] = None
    expires_at: Optional[datetime] = None


class RevokeRequest(BaseModel):
    channel: ConsentChannel


class CanCallRequest(BaseModel):
    phone: str
    now_local: datetime = Field(..., description="Current time; naive values are recipient wall-clock time")
    timezone: str


class DoNotCallRequest(BaseModel):
    reason: str = "user_request"


class SecurityConfigOut(BaseModel):
    """Sanitized configuration for admin/ops tools; never includes key material or secrets"""

    key_versions: List[str]
    current_key_version: Optional[str]
    provider_public_key_configured: bool
    webhook_max_skew_seconds: int
    hmac_integrations: List[str]
    calling_hours_start: str
    calling_hours_end: str
    consent_expiry_days: Optional[int]
    retention_days: Dict[str, Optional[int]]
    consent_proof_redaction_days: Optional[int]
    retention_sweep_interval_seconds: int
    log_level: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global encryption_service, webhook_verifier, consent_ledger, compliance_gate
    global retention_sweeper, retention_scheduler

    logger.info("Starting CallGuard compliance engine", version=SERVICE_VERSION)

    # Missing key material is a hard startup failure
    if encryption_service is None:
        encryption_service = get_encryption_service()
    if webhook_verifier is None:
        webhook_verifier = get_webhook_verifier()
    if consent_ledger is None:
        consent_ledger = get_consent_ledger()
    if compliance_gate is None:
        compliance_gate = get_compliance_gate()
    if retention_sweeper is None:
        retention_sweeper = get_retention_sweeper()

    if retention_scheduler is None and settings.retention_sweep_interval_seconds > 0:
        retention_scheduler = RetentionScheduler(retention_sweeper,
                                                 settings.retention_sweep_interval_seconds)
        retention_scheduler.start()

    logger.info("Compliance services initialized",
                key_version=encryption_service.keyring.current_version)

    yield

    if retention_scheduler is not None:
        await retention_scheduler.stop()
    logger.info("Shutting down CallGuard compliance engine")


# Create FastAPI app
app = FastAPI(
    title="CallGuard Compliance Engine",
    description="TCPA consent tracking, outbound call gating, webhook trust and data retention",
    version=SERVICE_VERSION,
    lifespan=lifespan
)


@app.exception_handler(SecurityError)
async def security_error_handler(request: Request, exc: SecurityError):
    if isinstance(exc, ValidationError):
        status_code = 400
    elif isinstance(exc, StoreUnavailableError):
        status_code = 503
    else:
        status_code = 500
        logger.error("Unhandled compliance error", path=request.url.path,
                     error_code=exc.error_code, error=exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def _require(service, name: str):
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name} not available")
    return service


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "components": {
            "encryption_service": encryption_service is not None,
            "webhook_verifier": webhook_verifier is not None,
            "consent_ledger": consent_ledger is not None,
            "compliance_gate": compliance_gate is not None,
            "retention_sweeper": retention_sweeper is not None,
            "retention_scheduler": retention_scheduler is not None and retention_scheduler.running,
        },
    }


@app.get("/security/config", response_model=SecurityConfigOut)
async def get_security_config():
    """Return a sanitized view of compliance configuration for admin/ops tools."""
    return SecurityConfigOut(
        key_versions=sorted(settings.encryption_keys),
        current_key_version=(encryption_service.keyring.current_version
                             if encryption_service is not None
                             else settings.encryption_current_key_version),
        provider_public_key_configured=bool(settings.telnyx_public_key),
        webhook_max_skew_seconds=settings.webhook_max_skew_seconds,
        hmac_integrations=sorted(settings.hmac_secrets),
        calling_hours_start=settings.calling_hours_start.isoformat(),
        calling_hours_end=settings.calling_hours_end.isoformat(),
        consent_expiry_days=settings.consent_expiry_days,
        retention_days={
            "calls": settings.retention_calls_days,
            "recordings": settings.retention_recordings_days,
            "logs": settings.retention_logs_days,
            "consent": settings.retention_consent_days,
        },
        consent_proof_redaction_days=settings.consent_proof_redaction_days,
        retention_sweep_interval_seconds=settings.retention_sweep_interval_seconds,
        log_level=settings.log_level,
    )


@app.post("/webhooks/telnyx")
async def telnyx_webhook(request: Request):
    """Accept a provider webhook only if its signature and timestamp verify"""
    if webhook_verifier is None:
        logger.error("Webhook verifier not available - rejecting webhook")
        return JSONResponse(status_code=401, content=INVALID_WEBHOOK)

    # Verify over the body exactly as received
    raw_body = await request.body()
    verdict = webhook_verifier.verify_provider_signature(
        WebhookEvent.from_request(raw_body, request.headers)
    )
    if not verdict:
        return JSONResponse(status_code=401, content=INVALID_WEBHOOK)

    try:
        event_type = json.loads(raw_body).get("data", {}).get("event_type")
    except (ValueError, AttributeError):
        event_type = None
    logger.info("Accepted provider webhook", event_type=event_type)
    return {"status": "accepted"}


@app.post("/webhooks/integrations/{integration}")
async def integration_webhook(integration: str, request: Request):
    """Accept an integration webhook signed with its shared HMAC secret"""
    raw_body = await request.body()
    signature = request.headers.get(WebhookHeaders.INTEGRATION_SIGNATURE, "")
    if not verify_integration_hmac(integration, raw_body, signature):
        return JSONResponse(status_code=401, content=INVALID_WEBHOOK)
    return {"status": "accepted", "integration": integration}


@app.post("/consent/{phone}/grant", response_model=ConsentRecord)
def grant_consent(phone: str, grant: GrantRequest):
    """Record a consent grant, superseding the active grant for the channel"""
    ledger = _require(consent_ledger, "Consent ledger")
    record = ledger.record_grant(phone, grant.channel, grant.source, grant.proof, grant.expires_at)
    logger.info("Consent granted", phone=mask_for_display(record.subject_phone),
                channel=grant.channel.value)
    return record


@app.post("/consent/{phone}/revoke")
def revoke_consent(phone: str, revoke: RevokeRequest):
    """Revoke the active grant for a channel; succeeds when nothing is active"""
    ledger = _require(consent_ledger, "Consent ledger")
    ledger.revoke(phone, revoke.channel)
    return {"status": "success"}


@app.get("/consent/{phone}", response_model=List[ConsentRecord])
def get_consent_history(phone: str):
    """Every consent record for a phone, oldest grant first"""
    return _require(consent_ledger, "Consent ledger").history(phone)


@app.post("/compliance/can-call", response_model=ComplianceDecision)
def check_can_call(request: CanCallRequest):
    """Gate an outbound call; dialers must treat allowed=false as a hard stop"""
    gate = _require(compliance_gate, "Compliance gate")
    return gate.can_call(request.phone, request.now_local, request.timezone)


@app.get("/dnc")
def list_do_not_call(offset: int = 0, limit: int = 100):
    dnc = _require(compliance_gate, "Compliance gate").dnc
    entries = _require(dnc, "Do-not-call list").entries(offset, limit)
    return {"entries": [entry.model_dump() for entry in entries]}


@app.post("/dnc/{phone}")
def add_do_not_call(phone: str, request: DoNotCallRequest):
    dnc = _require(_require(compliance_gate, "Compliance gate").dnc, "Do-not-call list")
    return {"added": dnc.add(phone, request.reason)}


@app.delete("/dnc/{phone}")
def remove_do_not_call(phone: str):
    dnc = _require(_require(compliance_gate, "Compliance gate").dnc, "Do-not-call list")
    return {"removed": dnc.remove(phone)}


@app.post("/retention/sweep", response_model=SweepReport)
async def run_retention_sweep():
    """Run a retention sweep now; returns a skipped report if one is already running"""
    sweeper = _require(retention_sweeper, "Retention sweeper")
    return await asyncio.to_thread(sweeper.sweep)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
