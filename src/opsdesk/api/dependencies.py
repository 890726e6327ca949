"""Request dependencies giving routes access to the application's owned state.

The record view and the access gate are created once per application in
the lifespan handler and stored on ``app.state``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from opsdesk.services.access_gate import AccessGate
from opsdesk.services.record_view import RecordView


def get_view(request: Request) -> RecordView:
    return request.app.state.view


def get_gate(request: Request) -> AccessGate:
    return request.app.state.gate


ViewDep = Annotated[RecordView, Depends(get_view)]
GateDep = Annotated[AccessGate, Depends(get_gate)]
