from domaincrawler.cli import main

raise SystemExit(main())
