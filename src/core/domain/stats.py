"""Helpers de series de tráfico."""

from __future__ import annotations

from typing import Mapping, Sequence

from core.domain.models import PortStatSample


def merge_port_series(series_by_port: Mapping[str, Sequence[PortStatSample]]) -> list[PortStatSample]:
    """Suma las series por puerto muestra a muestra.

    La serie más larga es la base de alineación (se conservan sus timestamps);
    un puerto con menos muestras aporta cero donde no tiene.
    """

    if not series_by_port:
        return []

    base: Sequence[PortStatSample] = ()
    for series in series_by_port.values():
        if len(series) > len(base):
            base = series

    merged: list[PortStatSample] = []
    for index, point in enumerate(base):
        sent = 0.0
        received = 0.0
        for series in series_by_port.values():
            if index < len(series):
                sent += series[index].sent
                received += series[index].received
        merged.append(PortStatSample(ts=point.ts, sent=sent, received=received))
    return merged
