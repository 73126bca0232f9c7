"""Lockdown Vault Meta information.
   Lockdown Vault keeps saved credentials encrypted under a single master password.
"""
__title__ = 'lockdown_vault'
__description__ = (
   'Lockdown Vault keeps saved credentials encrypted at rest '
   'under a single master password.'
)
__version__ = '1.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/lockdown-vault'
