from keepalive.main import main

main()
