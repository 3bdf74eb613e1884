"""Authentication.

Learn: Users log in with name + password and receive a JWT. The token
is accepted either as a Bearer header or from the HTTP-only auth cookie
set at login (browser displays), and the WebSocket endpoint also takes
it as a ?token= query param. All paths resolve to a CurrentIdentity.
"""
