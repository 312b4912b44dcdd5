"""
Crawl-and-liveness core for the expired domain scanner.
"""
