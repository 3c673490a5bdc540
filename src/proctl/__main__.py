from proctl.cli import main

main()
