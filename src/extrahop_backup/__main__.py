from extrahop_backup.cli import main

main()
