"""Foundation - building blocks for batchloader.

Contains: error handling and Outcome, configuration, testing helpers.
"""
