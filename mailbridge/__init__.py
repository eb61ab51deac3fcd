# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Mailbridge: an IMAP/SMTP channel for multi-channel message routers."""
