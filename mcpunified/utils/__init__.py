# -*- coding: utf-8 -*-
"""Location: ./mcpunified/utils/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Utility helpers shared by the gateway and the stdio bridge.
"""
