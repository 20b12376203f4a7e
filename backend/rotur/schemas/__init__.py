# rotur/schemas/__init__.py
"""
Pydantic request bodies for the REST routers.

Responses are the plain dicts the services return, wrapped in the
{"success": true, "data": ...} envelope, so only inputs are modelled here.
"""
