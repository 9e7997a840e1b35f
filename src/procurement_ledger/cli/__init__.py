"""Command-line interface (procure)"""
