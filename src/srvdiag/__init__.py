"""srvdiag - web server, PHP worker and MySQL/MariaDB diagnostics."""
