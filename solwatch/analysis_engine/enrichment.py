"""
Enrichment fetch: one POST to the Helius transactions endpoint per signature.

Any non-200 status, undecodable body, or empty result array is a hard
TransactionFetchError; nothing is cached.
"""

from __future__ import annotations

import httpx

from solwatch.analysis_engine.models import EnrichedTransaction
from solwatch.core.exceptions import TransactionFetchError

ENRICHMENT_TIMEOUT_SEC = 20.0
_MAX_ERROR_BODY = 200


async def fetch_enriched_transaction(
    client: httpx.AsyncClient,
    url: str,
    signature: str,
) -> EnrichedTransaction:
    """Fetch and parse the first enriched record for signature."""
    try:
        resp = await client.post(
            url,
            json={"transactions": [signature]},
            timeout=ENRICHMENT_TIMEOUT_SEC,
        )
    except httpx.HTTPError as e:
        raise TransactionFetchError(signature, f"{type(e).__name__}: {e}") from e

    if resp.status_code != 200:
        body = resp.text[:_MAX_ERROR_BODY]
        raise TransactionFetchError(
            signature, f"enrichment api returned non-200 status: {resp.status_code} {body}".rstrip()
        )
    try:
        data = resp.json()
    except ValueError as e:
        raise TransactionFetchError(signature, "failed to decode enrichment response") from e
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise TransactionFetchError(signature, "empty enrichment response")

    tx = EnrichedTransaction.from_dict(data[0])
    if not tx.signature:
        # Some providers omit the echo; the requested id is authoritative.
        tx = EnrichedTransaction.from_dict({**data[0], "signature": signature})
    return tx
