from pixiv_billfish.cli import main

main()
