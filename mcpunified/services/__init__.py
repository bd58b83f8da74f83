# -*- coding: utf-8 -*-
"""Location: ./mcpunified/services/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Services Package.
Exposes the gateway's runtime services:
- Tool index and call routing
- Source health monitoring
- Request metrics
- Logging
"""
