from shinydeploy.cli import main

raise SystemExit(main())
