"""
OrgTrack Backend — Route Handlers
==================================

    entities   hierarchy create/list/read       /{base}/ORGANIZATION ...
    auth       register/login/logout/me         /{base}/auth/...
    health     probe                            /health
    fallback   catch-all, 400 "404! Page not found"   (installed last)
"""
