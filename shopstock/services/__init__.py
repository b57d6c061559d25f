"""
shopstock Services

Money helpers, typed records, the record store, repositories, domain services
and real-time projections.
"""
