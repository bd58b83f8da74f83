# -*- coding: utf-8 -*-
"""Location: ./mcpunified/middleware/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Middleware package for the unified gateway.
"""
