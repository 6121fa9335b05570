"""Authentication and authorization.

Learn: Four pieces, leaves first:
1. password — bcrypt hashing, plus verification of legacy hash formats
2. jwt — stateless access/refresh token signing and verification
3. policy — pure allow/deny decision over (identity, action, tenant)
4. dependencies — the request gate: bearer token → identity → decision

All of them resolve to an explicit AuthContext that handlers receive as a
parameter; nothing is stashed on the request.
"""
