"""
NaiyakSetu services.
"""
