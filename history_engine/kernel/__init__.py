"""
Kernel layer: persistence models, key/value storage backends and the audit log.
"""
