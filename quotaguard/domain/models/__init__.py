"""Domain Models.

Value types, governor state, fingerprints and the error taxonomy.
"""
