"""
Ingestion of usage log files.

Discovery, line decoding and incremental tailing.
"""
