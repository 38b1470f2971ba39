#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Loggers for the orvibo_protocol package.

Datagram hex dumps go to the "orvibo_protocol.packets" child logger, so they can be
silenced separately from the rest of the package's debug output.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__.rsplit('.', 1)[0])

packet_logger = logger.getChild('packets')
