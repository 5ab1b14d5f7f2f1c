"""
Storage back-ends for sessions, medical records, health workers and analytics.
"""
