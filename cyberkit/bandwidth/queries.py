"""Bandwidth queries: legacy path querier, query service and contract querier."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import Any

from ..chain import AccAddress, ChainError, Context, format_dec
from .keeper import BandwidthMeter
from .types import (
    QUERY_ACCOUNT,
    QUERY_DESIRABLE_BANDWIDTH,
    QUERY_LOAD,
    QUERY_PARAMETERS,
    QUERY_PRICE,
    NeuronBandwidth,
    Params,
)


class UnknownRequestError(ChainError):
    """Raised for a query path the querier does not serve."""

    code = 6
    message = "unknown request"

    def __init__(self, detail: str) -> None:
        super().__init__(f"{detail}: {self.message}")


class UnsupportedRequestError(Exception):
    """Raised for a contract query of an unknown kind."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"unsupported request: {kind}")


def _indent(obj: Any) -> bytes:
    return json.dumps(obj, indent=2).encode()


def _compact(obj: Any) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode()


def _params_json(params: Params) -> dict[str, Any]:
    return {
        "recovery_period": str(params.recovery_period),
        "adjust_price_period": str(params.adjust_price_period),
        "base_price": format_dec(params.base_price),
        "base_load": format_dec(params.base_load),
        "max_block_bandwidth": str(params.max_block_bandwidth),
    }


def _neuron_json(bw: NeuronBandwidth) -> dict[str, Any]:
    return {
        "neuron": bw.neuron,
        "remained_value": str(bw.remained_value),
        "last_updated_block": str(bw.last_updated_block),
        "max_value": str(bw.max_value),
    }


def _empty_address() -> AccAddress:
    return AccAddress(b"", "")


def _parse_account_params(data: bytes | str) -> AccAddress:
    obj = json.loads(data)
    if not isinstance(obj, dict):
        raise ValueError("account query parameters must be a JSON object")
    text = obj.get("Address") or ""
    if not isinstance(text, str):
        raise ValueError("address must be a string")
    return AccAddress.from_bech32(text) if text else _empty_address()


def make_querier(meter: BandwidthMeter) -> Callable[..., bytes]:
    """Return a querier answering legacy path queries with indented JSON."""

    def querier(ctx: Context, path: Sequence[str], data: bytes | str = b"") -> bytes:
        if not path:
            raise UnknownRequestError("unknown query path: ")
        route = path[0]
        if route == QUERY_PARAMETERS:
            return _indent(_params_json(meter.get_params(ctx)))
        if route == QUERY_LOAD:
            return _indent({"load": {"dec": format_dec(meter.get_current_network_load(ctx))}})
        if route == QUERY_PRICE:
            return _indent({"price": {"dec": format_dec(meter.current_credit_price)}})
        if route == QUERY_DESIRABLE_BANDWIDTH:
            return _indent({"total_bandwidth": str(meter.get_desirable_bandwidth(ctx))})
        if route == QUERY_ACCOUNT:
            address = _parse_account_params(data)
            bw = meter.get_current_account_bandwidth(ctx, address)
            return _indent({"neuron_bandwidth": _neuron_json(bw)})
        raise UnknownRequestError(f"unknown query path: {route}")

    return querier


class QueryServer:
    """Typed query service over a bandwidth meter."""

    def __init__(self, meter: BandwidthMeter, *, hrp: str | None = None) -> None:
        self._meter = meter
        self._hrp = hrp

    def params(self, ctx: Context) -> Params:
        return self._meter.get_params(ctx)

    def load(self, ctx: Context) -> Decimal:
        return self._meter.get_current_network_load(ctx)

    def price(self, ctx: Context) -> Decimal:
        return self._meter.current_credit_price

    def total_bandwidth(self, ctx: Context) -> int:
        return self._meter.get_desirable_bandwidth(ctx)

    def neuron_bandwidth(self, ctx: Context, neuron: str | None) -> NeuronBandwidth:
        if neuron is None:
            raise ValueError("empty request")
        if neuron == "":
            raise ValueError("source address cannot be empty")
        address = AccAddress.from_bech32(neuron, self._hrp)
        return self._meter.get_current_account_bandwidth(ctx, address)


class WasmQuerier:
    """Answers custom bandwidth queries coming from contracts."""

    def __init__(self, meter: BandwidthMeter) -> None:
        self._meter = meter

    def query_custom(self, ctx: Context, data: bytes | str) -> bytes:
        query = json.loads(data)
        if query is None:
            query = {}
        if not isinstance(query, dict):
            raise ValueError("bandwidth query must be a JSON object")

        if query.get("bandwidth_price") is not None:
            return _compact({"price": format_dec(self._meter.current_credit_price)})
        if query.get("bandwidth_load") is not None:
            return _compact({"load": format_dec(self._meter.get_current_network_load(ctx))})
        if query.get("bandwidth_total") is not None:
            return _compact({"total": self._meter.get_desirable_bandwidth(ctx)})
        params = query.get("neuron_bandwidth")
        if params is not None:
            if not isinstance(params, dict):
                raise ValueError("neuron_bandwidth must be a JSON object")
            text = params.get("neuron") or ""
            try:
                address = AccAddress.from_bech32(text)
            except ValueError:
                address = _empty_address()
            bw = self._meter.get_current_account_bandwidth(ctx, address)
            return _compact(
                {
                    "neuron": bw.neuron,
                    "remained_value": bw.remained_value,
                    "last_updated_block": bw.last_updated_block,
                    "max_value": bw.max_value,
                }
            )
        raise UnsupportedRequestError("unknown Bandwidth variant")