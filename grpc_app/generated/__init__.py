"""Python stubs for ``grpc_app/protos/grades.proto``.

Compiled at import time by grpcio-tools (``grpc.protos_and_services``), so
no generated ``*_pb2.py`` files are checked in. The proto is addressed by
its path relative to the project root, which therefore has to be
importable.
"""
from __future__ import annotations

import sys
from pathlib import Path

import grpc

PROTO_FILE = "grpc_app/protos/grades.proto"

_PROJECT_ROOT = str(Path(__file__).resolve().parents[2])
if _PROJECT_ROOT not in sys.path:
    sys.path.append(_PROJECT_ROOT)

grades_pb2, grades_pb2_grpc = grpc.protos_and_services(PROTO_FILE)

SERVICE_NAME = grades_pb2.DESCRIPTOR.services_by_name["GradesService"].full_name

__all__ = ["grades_pb2", "grades_pb2_grpc", "PROTO_FILE", "SERVICE_NAME"]
