"""
Sweets service: catalog and concurrency-safe stock transactions for a sweet shop.
"""
