"""
Command line tools for oscport.

    oscport-listen  (oscport.cli.listen_cli) - dump incoming messages as JSON lines
"""
