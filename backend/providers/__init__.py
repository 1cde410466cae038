"""
Provider read adapters and the session collaborator that authorizes them.
"""
