"""
Services Layer for the Add-on Calculation Engine.
"""
