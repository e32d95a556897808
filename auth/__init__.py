"""auth/ -- Authentication and session abstraction layer for authbridge.

Two contracts:
  AuthSession (auth.session)  -- read / create / destroy a cookie-addressed session
  Auth[User]  (auth.providers) -- create_account, login, logout, exists,
                                  require_user, user

Layer rule: auth/ imports only stdlib + third-party libraries and core/.
It does NOT import from api/ or profiles/.
api/ imports from auth/, not the other way around.
"""
