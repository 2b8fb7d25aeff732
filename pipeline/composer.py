"""
Per-route request pipeline.

Stages always run in this order and stop at the first rejection:

    content-type / size guard -> parse -> injection guard -> sanitizers
    -> schema validation (all errors at once) -> business rules

Business rules are the only stage that touches the store, so a request that
fails validation never costs a query.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, MutableMapping, Optional, Sequence, Tuple
from urllib.parse import parse_qsl

from fastapi import Request

from pipeline.errors import PipelineError, ValidationError, ValidationFailure
from pipeline.guards import FORM, JSON, check_body_size, check_content_type, check_injection
from pipeline.sanitizer import Sanitizer, run_sanitizers
from pipeline.schema import FieldRule, SchemaValidator

logger = logging.getLogger(__name__)

BusinessStage = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class PipelineResult:
    body: Dict[str, Any]
    query: Dict[str, Any]


def _malformed(message: str) -> ValidationFailure:
    return ValidationFailure([ValidationError(field="body", message=message)])


def parse_json(raw: bytes) -> Dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        # Decimal keeps the written digits so the 2-decimal rule can count them
        payload = json.loads(raw, parse_float=Decimal)
    except (ValueError, UnicodeDecodeError):
        raise _malformed("Malformed JSON body")
    if not isinstance(payload, dict):
        raise _malformed("Request body must be a JSON object")
    return payload


def parse_form(raw: bytes) -> Dict[str, Any]:
    try:
        return dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True))
    except UnicodeDecodeError:
        raise _malformed("Malformed form body")


async def read_limited(request: Request, max_bytes: int) -> bytes:
    """Read the body chunk by chunk, stopping as soon as it passes ``max_bytes``."""
    raw = bytearray()
    async for chunk in request.stream():
        raw.extend(chunk)
        check_body_size(None, raw, max_bytes)
    return bytes(raw)


@dataclass(frozen=True)
class RoutePipeline:
    name: str
    max_body: int = 1024
    content_types: Sequence[str] = (JSON,)
    sanitizers: Sequence[Sanitizer] = ()
    rules: Sequence[FieldRule] = ()
    query_sanitizers: Sequence[Sanitizer] = ()
    query_rules: Sequence[FieldRule] = ()
    reads_body: bool = True
    validator: SchemaValidator = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "validator", SchemaValidator(list(self.rules) + list(self.query_rules)))

    def parse_body(self, content_type: Optional[str], raw: bytes) -> Dict[str, Any]:
        if FORM in (content_type or "").lower():
            return parse_form(raw)
        return parse_json(raw)

    async def read(self, request: Request) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        query: Dict[str, Any] = dict(request.query_params)
        if not self.reads_body:
            return {}, query
        content_type = request.headers.get("content-type")
        check_content_type(request.method, content_type, self.content_types)
        check_body_size(request.headers.get("content-length"), b"", self.max_body)
        raw = await read_limited(request, self.max_body)
        return self.parse_body(content_type, raw), query

    def clean(self, body: MutableMapping[str, Any], query: MutableMapping[str, Any]) -> None:
        check_injection(body, query)
        run_sanitizers(body, self.sanitizers)
        run_sanitizers(query, self.query_sanitizers)
        self.validator.validate({"body": body, "query": query})

    async def run(
        self,
        request: Request,
        principal_id: Optional[str] = None,
        business: Optional[BusinessStage] = None,
    ) -> PipelineResult:
        try:
            body, query = await self.read(request)
            self.clean(body, query)
            if business is not None:
                await business(body)
        except PipelineError as exc:
            logger.warning(
                "Request rejected on %s: %s (status=%s, user=%s)",
                self.name, exc.kind, exc.status_code, principal_id or "anonymous",
            )
            raise
        return PipelineResult(body=body, query=query)
