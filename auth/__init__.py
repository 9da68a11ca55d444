"""auth/ -- Session coordination and backend credential policies.

Layer rule: auth/ imports from core/, identity/, profiles/, and cache/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
