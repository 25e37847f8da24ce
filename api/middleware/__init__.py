# SPDX-License-Identifier: Apache-2.0

"""
Middleware package for request processing.

This package contains the CORS request gate, the request deadline guard and
the request/response adapters they share with Flask and WSGI.
"""
