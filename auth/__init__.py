"""auth/ -- Wallet-signature authentication package for Hacka-Fi.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or hackathons/.
api/ imports from auth/, not the other way around.
"""
