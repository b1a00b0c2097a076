"""gRPC transport layer for the grades service.

This package hosts:
- The protocol buffer contract (in `protos/`) and its runtime-compiled stubs (in `generated/`).
- Server bootstrap and interceptors.
- Thin service adapters that map gRPC requests to application services.
"""
