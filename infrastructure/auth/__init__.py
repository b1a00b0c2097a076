from .jwt_verifier import JWTTokenVerifier

__all__ = ["JWTTokenVerifier"]
