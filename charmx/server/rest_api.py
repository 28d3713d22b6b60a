"""
FastAPI REST API for CharmX

Exposes the spell pipeline over HTTP for wallets and explorers:
decode a raw transaction, or fetch one by txid and decode it.
"""

import logging
import os
import time
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Path, Query
from pydantic import BaseModel

from charmx import version_short
from charmx.lib.charms import charms_for_wallet
from charmx.server.fetcher import FetchError
from charmx.server.pipeline import ExtractionResult, ExtractionStatus

app = FastAPI(
    title="CharmX REST API",
    description="Decode and verify Charms spells in Bitcoin transactions",
    version=version_short,
    docs_url="/docs",
    redoc_url="/redoc",
)


def _require_api_key(x_api_key: Optional[str] = Header(default=None, alias='X-API-Key')):
    required_key = _api_key
    if required_key is None:
        required_key = os.getenv('REST_API_KEY', '').strip()
    if not required_key:
        return
    if not x_api_key or x_api_key != required_key:
        raise HTTPException(status_code=401, detail='Unauthorized')


# Pipeline, fetcher and API key (set by create_app on startup)
_pipeline = None
_fetcher = None
_api_key = None
_start_time = time.time()


def set_pipeline(pipeline, fetcher=None, api_key=None):
    """Set the pipeline, fetcher and API key used by the endpoints.

    With no *api_key* the ``REST_API_KEY`` environment variable is read
    on each request.
    """
    global _pipeline, _fetcher, _api_key
    _pipeline = pipeline
    _fetcher = fetcher
    _api_key = api_key


# =============================================================================
# MODELS
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    uptime_seconds: float
    network: str
    verification_versions: List[int]


class DecodeRequest(BaseModel):
    tx_hex: str
    network: Optional[str] = None


class WalletRequest(DecodeRequest):
    outpoints: List[str]


class ExtractionResponse(BaseModel):
    status: str
    txid: Optional[str] = None
    version: Optional[int] = None
    verified: bool = False
    charms: List[Dict[str, Any]] = []
    verification_error: Optional[str] = None


# Pipeline failures that are the caller's fault
_ERROR_STATUS_CODES = {
    ExtractionStatus.TX_FORMAT_ERROR: 400,
    ExtractionStatus.DECODE_ERROR: 422,
    ExtractionStatus.ASSEMBLY_ERROR: 422,
}


def jsonable(value: Any) -> Any:
    """Convert decoded CBOR values into JSON-friendly ones."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, dict):
        return {str(jsonable(k)): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [jsonable(v) for v in value]
    return value


def _to_response(result: ExtractionResult) -> ExtractionResponse:
    code = _ERROR_STATUS_CODES.get(result.status)
    if code is not None:
        raise HTTPException(status_code=code,
                            detail={'status': result.status,
                                    'error': result.error.reason if result.error else None})
    data = jsonable(result.to_dict())
    return ExtractionResponse(
        status=data['status'],
        txid=data['txid'],
        version=data['version'],
        verified=data['verified'],
        charms=data['charms'],
        verification_error=data['verification_error'],
    )


def _get_pipeline():
    if _pipeline is None:
        raise HTTPException(status_code=503, detail='Pipeline not available')
    return _pipeline


# =============================================================================
# HEALTH
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """API health and the spell versions that can be verified."""
    pipeline = _pipeline
    return HealthResponse(
        status="healthy" if pipeline else "degraded",
        uptime_seconds=round(time.time() - _start_time, 2),
        network=pipeline.network if pipeline else 'unknown',
        verification_versions=pipeline.context.supported_versions if pipeline else [],
    )


# =============================================================================
# CHARMS
# =============================================================================

@app.post("/decode", response_model=ExtractionResponse, tags=["Charms"],
          dependencies=[Depends(_require_api_key)])
async def decode_transaction(request: DecodeRequest):
    """Decode the spell of a raw transaction given as hex."""
    result = await _get_pipeline().extract_async(request.tx_hex.strip(), request.network)
    return _to_response(result)


@app.post("/wallet/charms", response_model=ExtractionResponse, tags=["Charms"],
          dependencies=[Depends(_require_api_key)])
async def wallet_charms(request: WalletRequest):
    """Decode a raw transaction and keep the charms on the given outpoints."""
    result = await _get_pipeline().extract_async(request.tx_hex.strip(), request.network)
    if result.status == ExtractionStatus.FOUND:
        result.charms = charms_for_wallet(result.charms, set(request.outpoints))
    return _to_response(result)


@app.get("/charms/{txid}", response_model=ExtractionResponse, tags=["Charms"],
         dependencies=[Depends(_require_api_key)])
async def get_charms(txid: str = Path(..., min_length=64, max_length=64),
                     network: Optional[str] = Query(default=None)):
    """Fetch a transaction by txid and decode its spell."""
    pipeline = _get_pipeline()
    if _fetcher is None:
        raise HTTPException(status_code=503, detail='Fetcher not available')
    try:
        raw_tx = await _fetcher.fetch(txid)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if raw_tx is None:
        raise HTTPException(status_code=404, detail='Transaction not found')
    return _to_response(await pipeline.extract_async(raw_tx, network))


# =============================================================================
# STARTUP
# =============================================================================

def create_app(env=None):
    """Build the pipeline and fetcher from *env* and return the app."""
    from charmx.server.env import Env
    from charmx.server.fetcher import TransactionFetcher
    from charmx.server.pipeline import SpellPipeline

    env = env or Env()
    logging.basicConfig(level=env.log_level,
                        format='%(levelname)s:%(name)s:%(message)s')
    set_pipeline(SpellPipeline.from_env(env), TransactionFetcher(env),
                 api_key=env.rest_api_key)
    return app


def main():
    import uvicorn
    from charmx.server.env import Env

    env = Env()
    uvicorn.run(create_app(env), host=env.rest_host, port=env.rest_port)


if __name__ == "__main__":
    main()
