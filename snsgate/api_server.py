"""
SNS Gateway API Server

FastAPI shell around the relayer core:
- every request payload is an encrypted envelope, decrypted before use
- every response (errors included) is encrypted before it leaves
- decrypted payloads are validated into a request model per endpoint

Run: python -m snsgate
  or uvicorn snsgate.api_server:create_app_from_env --factory
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional, Type

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from snsgate.config import SNS_VERSION, Settings
from snsgate.envelope import EncryptionGateway
from snsgate.errors import (
    ConfigError,
    DecryptionError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    SnsGatewayError,
)
from snsgate.models import (
    CheckDomainRequest,
    DomainRequest,
    LookupRequest,
    PurchaseDomainRequest,
    UpdateDomainRequest,
    parse_request,
)
from snsgate.observability import configure_logging, configure_observability
from snsgate.pubkey import Pubkey, parse_pubkey
from snsgate.registry import RegistryClient
from snsgate.service import DomainService
from snsgate.signer import RelayerSigner

logger = logging.getLogger(__name__)


def _config_pubkey(name: str, value: str) -> Pubkey:
    try:
        return parse_pubkey(value)
    except InvalidInputError:
        raise ConfigError(f"{name} is not a valid address: {value!r}")


async def _read_envelope(request: Request) -> Any:
    if request.method == "GET":
        return dict(request.query_params)
    try:
        return await request.json()
    except ValueError:
        raise DecryptionError("Request body is not a JSON envelope")


def create_app(
    settings: Settings,
    registry: Optional[RegistryClient] = None,
    signer: Optional[RelayerSigner] = None,
) -> FastAPI:
    """Build the app. Key material is loaded here; bad keys stop startup."""
    signer = signer or RelayerSigner.from_secret(settings.relayer_secret_key)
    gateway = EncryptionGateway(settings.aes_key, settings.aes_iv)
    owns_registry = registry is None
    registry = registry or RegistryClient(
        rpc_endpoint=settings.rpc_endpoint,
        sns_api_url=settings.bonfida_sns_api,
        records_api_url=settings.bonfida_api,
        timeout_s=settings.http_timeout_s,
    )
    service = DomainService(
        registry=registry,
        signer=signer,
        usdc_mint=_config_pubkey("USDC_MINT_ADDRESS", settings.usdc_mint),
        payment_account=_config_pubkey("SNS_PAYMENT_ADDRESS", settings.sns_payment_address),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("SNS Service running on port %s", settings.port)
        logger.info("System wallet: %s", signer.pubkey)
        logger.info("USDC Mint: %s", settings.usdc_mint)
        logger.info("SNS Program: %s", settings.root_domain_account)
        yield
        if owns_registry:
            await registry.aclose()

    app = FastAPI(
        title="SNS Gateway",
        description="Relayer for Solana Name Service purchases and lookups",
        version=SNS_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    configure_observability(app)

    def respond(payload: Any, status_code: int = 200) -> JSONResponse:
        return JSONResponse(status_code=status_code, content=gateway.encrypt_response(payload))

    def respond_error(endpoint: str, exc: SnsGatewayError) -> JSONResponse:
        if isinstance(exc, (InvalidInputError, NotFoundError, DecryptionError)):
            logger.info("[API] %s - %s: %s", endpoint, type(exc).__name__, exc.message)
        else:
            logger.warning("[API] %s - %s: %s (%s)", endpoint, type(exc).__name__,
                           exc.message, exc.details)
        if isinstance(exc, InternalError):
            exc = InternalError()
        return respond(exc.payload(), exc.status_code)

    async def handle(
        request: Request,
        endpoint: str,
        model: Type[BaseModel],
        invalid_message: str,
        operation: Callable[[Any], Awaitable[dict]],
    ) -> JSONResponse:
        try:
            payload = gateway.decrypt_request(await _read_envelope(request))
            logger.info("[API] %s - Processed request: %s", endpoint, payload)
            req = parse_request(model, payload, invalid_message)
            return respond(await operation(req))
        except SnsGatewayError as e:
            return respond_error(endpoint, e)
        except Exception:
            logger.exception("[API] %s - unexpected error", endpoint)
            return respond(InternalError().payload(), 500)

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    @app.get("/sns/check-domain")
    async def check_domain(request: Request):
        return await handle(request, "/sns/check-domain", CheckDomainRequest,
                            "Domain name is required", service.check_domain)

    @app.post("/sns/purchase-domain")
    async def purchase_domain(request: Request):
        return await handle(request, "/sns/purchase-domain", PurchaseDomainRequest,
                            "All fields are required", service.purchase_domain)

    @app.post("/sns/update-domain")
    async def update_domain(request: Request):
        return await handle(request, "/sns/update-domain", UpdateDomainRequest,
                            "Domain and new owner are required", service.update_domain)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    @app.get("/sns/lookup")
    async def lookup(request: Request):
        return await handle(request, "/sns/lookup", LookupRequest,
                            "Public key is required", service.lookup)

    @app.get("/sns/domain-records")
    async def domain_records(request: Request):
        return await handle(request, "/sns/domain-records", DomainRequest,
                            "Domain is required", service.domain_records)

    @app.get("/sns/reverse-lookup")
    async def reverse_lookup(request: Request):
        return await handle(request, "/sns/reverse-lookup", DomainRequest,
                            "Domain is required", service.reverse_lookup)

    # =========================================================================
    # HEALTH
    # =========================================================================

    @app.get("/health")
    async def health():
        return respond(service.health())

    return app


def create_app_from_env() -> FastAPI:
    from dotenv import load_dotenv

    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    return create_app(settings)


def main() -> None:
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
