"""Spaces Vault Meta information.
   Spaces Vault protects the credentials stored in a Spaces personal vault.
"""
__title__ = 'spaces_vault'
__description__ = (
   'Per-user authenticated encryption and key rotation '
   'for Spaces stored credentials.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2025 Spaces contributors'
__author__ = 'Spaces contributors'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/utking/spaces'
