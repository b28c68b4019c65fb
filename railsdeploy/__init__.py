"""railsdeploy - deployment tasks for a Rails application behind Apache.

Tasks are resolved against a single remote host selected by a server class
(``qa`` or ``prod``) and a version label, assembled into one ordered command
sequence and executed over a single SSH session.
"""

__version__ = "0.3.0"
