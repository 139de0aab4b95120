from .cli import shellguard_cli

shellguard_cli()
