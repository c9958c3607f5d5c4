"""regen: staged regeneration of locally-installed automation artifacts.

Generated scripts, commands, agents and skills are built in an isolated
staging tree, validated, and only then swapped into production. See
`regen --help` for the command line interface.
"""
