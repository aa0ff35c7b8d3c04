from localexec.cli import main

main()
