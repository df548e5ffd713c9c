"""PDP workflow services"""
