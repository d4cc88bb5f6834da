"""
Library Mirror - Browser Access

Playwright-based session provider. BrowserEngine owns the browser
lifecycle and cookies, auth.py handles login and human verification, and
BrowserSession is the narrow interface the rest of the project uses.
"""
