"""
Challenge Review Service
Blueprint registry: health probes and the reviews API.
"""
