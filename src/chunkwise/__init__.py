"""
Chunkwise: resumable, chunk-oriented batch execution.

Processes bounded record sequences in atomic chunks, checkpoints after
every commit, tolerates bad records through retry/skip policies, and fans
work out across parallel partitions.
"""

__version__ = "0.1.0"
