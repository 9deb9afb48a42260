from tollgate.server import main

main()
