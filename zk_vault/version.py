"""ZK Vault Meta information.
   ZK Vault stores opaque payloads encrypted under a wrapped master key.
"""
__title__ = 'zk_vault'
__description__ = (
   'Encrypted local key-value vault with pluggable '
   'master key protection.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2026 zk_vault contributors'
__author__ = 'zk_vault contributors'
__author_email__ = ''
__license__ = 'Apache-2.0'
