"""auth/ -- Credential authentication and session lifecycle for SessionGate.

Store, hasher, codec, session manager and authorization gate.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/; configuration values arrive through
constructor arguments. api/ imports from auth/, not the other way around.
"""
