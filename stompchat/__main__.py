from .run_client import main

main()
