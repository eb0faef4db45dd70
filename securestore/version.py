"""Secure Store Meta information.
   Secure Store keeps application records encrypted at rest on local disk.
"""
__title__ = 'securestore'
__description__ = (
   'Secure Store keeps application records encrypted at rest '
   'on local disk.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2026 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/securestore'
