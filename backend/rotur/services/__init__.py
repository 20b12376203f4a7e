# rotur/services/__init__.py
"""
Domain services. Each takes the Store (and any collaborator it needs)
explicitly and raises rotur.core.errors kinds on refusal.
"""
