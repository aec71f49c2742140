"""NaiyakSetu - Grievance intake and tracking backend"""

__version__ = "1.0.0"
