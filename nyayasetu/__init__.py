"""
NyayaSetu - relief disbursement backend for atrocity and intercaste
marriage grievances.
"""

__version__ = "1.0.0"
