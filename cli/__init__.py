# Angkor Compliance Access Control - Command Line Interface
