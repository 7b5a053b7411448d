from advault_dns.cli import main

main()
