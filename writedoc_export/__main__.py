from writedoc_export.cli import main

raise SystemExit(main())
